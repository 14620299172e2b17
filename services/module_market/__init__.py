"""
Module Market

Registry of modules discovered from descriptor files, served over HTTP.
"""
