"""HTTP surface for the snapshot API."""
