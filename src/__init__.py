"""Gasless governance relay: meta-transaction voting and delegation for Governor DAOs."""
