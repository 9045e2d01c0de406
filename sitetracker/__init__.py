"""Project Site Tracker backend: geotagged project sites and bulk CSV import."""
