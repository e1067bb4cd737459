"""Domain Layer: value objects, events and ports shared by all other layers."""
