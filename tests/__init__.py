"""
BroadcastSync Test Suite

Test Categories:
- unit/: Fast, isolated unit tests (clock, plans, states, config, errors)
- streaming/: Adapters and sync engine driven against fake surfaces
- fixtures/: Surface, backend and clock doubles
"""
