"""Dockship terminal output — upload progress and run reports.

Modules
-------
progress
    ``ProgressReporter`` Protocol plus the null and Rich multi-bar
    implementations fed by the upload threads.
renderer
    ``ReportRenderer`` turns a ``DistributionConfig`` and a
    ``DistributionReport`` into Rich panels and tables.
"""
