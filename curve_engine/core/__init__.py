"""Engine core: curve math, quoting, configuration, logging, metrics"""
