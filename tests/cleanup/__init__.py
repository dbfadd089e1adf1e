"""
Staggered Cleanup Test Suite.

- Timeline construction (ordering, stagger distance, targets)
- StepQueue and ErrorCollector behavior
- RemoteMutator deadline and cancellation paths
- Scheduler runs end to end against an in-memory platform
- Query Store adapter with subprocess mocked out
"""
