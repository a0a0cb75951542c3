"""Production Batch Tracker."""
