"""Packaged resources for :mod:`irkeys`."""
