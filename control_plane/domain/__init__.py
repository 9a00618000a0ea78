"""Domain layer: roles, permission levels, entities, value objects and exceptions."""
