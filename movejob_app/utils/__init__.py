"""
Utility functions module.

Time Semantics:
- All timestamps handled by the engine are epoch milliseconds (int)
- Clocks are injected as zero-argument callables so tests stay deterministic
- Display formatting never feeds back into stored state
"""
