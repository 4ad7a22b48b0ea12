"""Native boundary and handle bookkeeping."""
