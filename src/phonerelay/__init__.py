"""Rendezvous relay between one HTTP-performing provider and many consumers."""

__version__ = "0.1.0"
