"""External generation provider clients.

Each client wraps one provider's async job API:
  POST create job → GET job detail → GET generation content
"""

from genvault.services.providers.sora_video import FetchedContent, SoraClient

__all__ = ["FetchedContent", "SoraClient"]
