"""cardflow - flow graph execution and validation for character chat."""
