"""Mutekeeper: durable, self-expiring moderation sanctions for Discord guilds."""
