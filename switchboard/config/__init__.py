"""Runtime settings and catalog file loading."""
