"""Recurring dataset pipeline.

Acquire - Downloads the scraped dataset into the raw data directory
Normalize / Load - Hand the working directories to external collaborators
Archive - Moves processed artifacts into dated archive folders

The scrape trigger submits the remote scrape task that produces the dataset.
"""
