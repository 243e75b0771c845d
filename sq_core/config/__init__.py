"""
SlotQuorum configuration: settings, YAML file and run configuration.
"""
