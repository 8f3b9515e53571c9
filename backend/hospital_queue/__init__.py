"""Hospital queue management backend."""
