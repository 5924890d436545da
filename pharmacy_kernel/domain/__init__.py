"""Pure domain layer: clock abstraction, value types, routing rules. Zero I/O."""
