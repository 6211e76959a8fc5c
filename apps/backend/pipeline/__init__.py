"""
Job-posting content extraction pipeline.

Turns an arbitrary job posting URL into clean plain text (and structured
fields where the page exposes them) by running a cascade of extraction
strategies. Entry point: ``pipeline.extractor.extract_job_posting``.
"""

__version__ = "1.0.0"
