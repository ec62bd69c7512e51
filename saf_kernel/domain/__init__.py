"""Pure domain types shared by every layer: clock, results, workflows."""
