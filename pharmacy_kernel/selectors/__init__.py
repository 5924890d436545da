"""Read-only query selectors.  Return DTOs, never mutate."""
