"""Environment-based configuration for StackSync."""
