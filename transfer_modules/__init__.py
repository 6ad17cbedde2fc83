"""Business modules built on the transfer kernel."""
