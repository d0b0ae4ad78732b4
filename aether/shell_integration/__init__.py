"""Shell hook scripts printed by `aether inject`."""
