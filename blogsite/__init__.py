"""
Blogsite - blog content cache for a personal website

Pulls published articles from the Emvi headless CMS, rewrites their markup
for local serving, mirrors attachments to disk and keeps an in-memory index
that the website reads from.
"""

__version__ = "0.1.0"
