"""Cross-cutting helpers: error hierarchy, structured logging, concurrency."""
