"""Runnable example graphs (``jobloom run jobloom.examples.word_count:tool IN OUT``)."""
