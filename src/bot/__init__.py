"""
Discord surface of the RickTea bot: commands, control panel and turn reporters.
"""
