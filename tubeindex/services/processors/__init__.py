"""
Content Processors Package

This package contains the leaf services of the indexing pipeline.

Modules:
--------
- segmenter: Sentence-bounded, token-budgeted transcript chunking
- keyword_extractor: Named-entity keyword extraction (transformers NER)
- embedder: Text embeddings from the OpenAI embeddings API
- text_search: Stop words and query keyword matching
"""
