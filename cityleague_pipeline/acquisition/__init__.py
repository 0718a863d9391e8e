"""
Ranking and listing acquisition from the upstream results site.

Ranking tiers are ``AcquisitionStrategy`` implementations tried in order by
``AcquisitionLadder``; the listing source renders the event listing for the
Probe.  Parsing helpers are pure functions so they can be tested on fixture
HTML and JSON without a network or a browser.
"""
