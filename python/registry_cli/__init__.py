"""
Registry V2 CLI.

Interactive client for a Docker Registry v2 instance:
- Listing the catalog and its tags
- Pushing images from a local build, a Dockerfile or a git repository
- Removing tags safely, even when their manifest is shared with other tags
"""

__version__ = "1.0.0"
