# Services package.
#
# Each module exposes a focused set of async functions for one part of
# the article aggregate:
#
#   article_service  — create / update / delete / list, body images, tags
#   comment_service  — attach, detach and cascade of article comments
#   votes            — the vote ledger and its derived counters
#   assets           — upload storage and orphan file removal
#   slugs            — slug generation
#   user_service     — registration, profiles, avatars
#
# Functions touching the database accept an AsyncSession as their first
# argument so that the router layer controls the transaction boundary
# via the ``get_db`` dependency.
