"""Sync logged gym workouts from AimHarder to Strava and Garmin Connect."""
