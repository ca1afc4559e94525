"""Pure domain logic and external clients used by melody services."""
