"""Prayer times: timetable, evaluation, alerts and the client clock."""
