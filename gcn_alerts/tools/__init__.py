"""
GCN command line tools
Notice sender (test client) and TJD date converter
"""
