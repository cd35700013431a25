"""
Configuration management for Vibecord.

- config_file: reading and validating the YAML/JSON configuration file
- app_configuration: immutable AppConfig snapshots and the merge rules
- config_manager: hot reload and subscriber notification
"""
