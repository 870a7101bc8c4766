"""Session services: decks, vote aggregation, room/story store, timers,
presence and the coordinator that ties them together.

Transport concerns (Socket.IO handlers, HTTP routes) live outside this
package and call into the coordinator.
"""
