"""Financial report rendering: fragments, assembly and the export pipeline."""
