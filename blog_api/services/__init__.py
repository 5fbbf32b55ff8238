# Services package.
#
# Each module exposes async functions that hold the business logic for
# one part of the blog core:
#
#   post_service         : Post Store: create/update state machine, lookup, related posts
#   query_service        : list requests: normalisation, filtering, sorting, paging
#   comment_service      : append-only comments and ordered listing
#   interaction_service  : like/bookmark ledger with per-key atomic toggles
#   detail_service       : concurrent detail-view composition
#   user_service         : author records
#
# Functions taking an AsyncSession leave the transaction boundary to the
# ``get_db`` dependency.  The detail and interaction services take a
# session factory instead, because they need several concurrent sessions
# or a commit that happens inside a lock.
