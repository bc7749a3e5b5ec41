"""merklediff command-line application."""
