"""
Relay engine.

Components:
    bus         - lossy publish/subscribe channel for coordination commands
    public_link - persistent link to the public rendezvous endpoint
    data_link   - one-shot link to a data endpoint named by the public side
    dispatcher  - owns the session state and supervises data links
"""
