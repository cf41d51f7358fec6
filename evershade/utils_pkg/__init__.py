"""Low level byte helpers shared by the archive and script layers."""
