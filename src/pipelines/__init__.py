"""
Batch RULA pipeline and read service.

Scores motion-capture trials through RULA steps 1-15:
    Stage 1: Input contract validation & frame masking
    Stage 2: Posture classification (steps 1-4, 9-11)
    Stage 3: Table lookups, muscle use and load (steps 5-8, 12-15, Table C)
    Stage 4: Summary statistics and cross-trial table
"""
