"""
Core translation pipeline: extraction, glossary, segment translation and job orchestration.
"""
