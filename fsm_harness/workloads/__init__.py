"""
Bundled FSM workloads run against Valkey collections
"""
