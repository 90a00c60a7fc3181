# Services package.
#
#   post_service     - dual-write coordinator (database first, then search index)
#   reindex_service  - replays failed index writes and rebuilds the index
#   user_service     - users and the blogs they own
#
# Service functions take an AsyncSession as their first argument.  Post
# mutations commit themselves so the database write is durable before the
# index is touched; everything else leaves the commit to ``get_db``.
