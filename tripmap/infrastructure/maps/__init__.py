"""Map provider adapters: geocoding, static images, live map and the gazetteer."""
