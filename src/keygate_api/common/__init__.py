"""Cross-cutting helpers shared by keygate API features."""
