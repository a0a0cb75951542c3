"""Utilities package for the production batch tracker."""
