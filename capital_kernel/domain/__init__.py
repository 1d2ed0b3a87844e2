"""Pure domain layer: value objects, state tables and calculations. No I/O."""
