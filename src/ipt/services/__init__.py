"""Service layer: parsing, serialization and the iptables facade."""
