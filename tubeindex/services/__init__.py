"""
Business logic services.

- processors: segmentation, keyword extraction, embeddings, query keywords
- storage: IndexStore port and its SQLAlchemy implementation
- sources: video listing and transcript fetching
- indexing: channel indexing orchestrator and maintenance
- search: hybrid search engine and scoring
- factory: wires everything together from settings
"""
