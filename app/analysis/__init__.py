"""AI response analysis and visibility aggregation.

  1. Analysis prompt builder (answer + self-reported metrics in one call)
  2. Response parser (delimited sections, sentiment, position, mentions JSON)
  3. Resource extractor (citation URLs, type normalization, competitor URLs)
  4. Mention extraction (brand / competitor occurrences in the answer)
  5. Visibility aggregation (presence frequency over a time window)
  6. Citation-check prompt allocation (largest-remainder sampling)
"""
