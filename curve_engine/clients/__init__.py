"""Network collaborators: on-chain snapshot reader and SOL price oracle"""
