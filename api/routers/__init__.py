"""API routers for formulas, fill-down and workbooks."""
