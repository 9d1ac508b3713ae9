"""Letterboxd plugin package.

Films are the items, members are the actors, reviews are the relations.
:class:`~plugins.letterboxd.site.LetterboxdSite` carries the URLs and the
field locators; the generic crawl loop does the rest.
"""
