"""Package to define unit tests."""
