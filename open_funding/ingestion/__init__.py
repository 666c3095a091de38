"""
open_funding.ingestion - Repository metadata scraping.

Modules:
    repo_client - GitHub/GitLab client: file tree listing, dependency
                  manifests, contributors files and funding files.
"""
