"""Candidate question generation for brands and posts.

  1. Instruction prompt builders (brand website / single post)
  2. Tolerant line parser with an interrogative filter
  3. Template fallbacks when no model produced questions
  4. Near-duplicate removal and provider-balanced selection
"""
