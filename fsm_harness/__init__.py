"""
FSM Workload Harness - Concurrent finite-state-machine workloads against Valkey
"""
__version__ = "0.1.0"
