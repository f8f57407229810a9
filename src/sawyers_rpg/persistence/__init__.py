"""Local save slots: record models, storage backends and the slot manager."""
