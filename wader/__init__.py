"""wader: an interactive tool-calling coding agent for the terminal."""
