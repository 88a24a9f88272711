"""HTTP surface for the governance relay."""
