"""infraphase command line interface."""
