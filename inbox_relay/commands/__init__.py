"""Commands: one class per use case, each with an execute() entry point."""
