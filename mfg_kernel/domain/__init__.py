"""Pure domain types: clock and inventory value objects."""
