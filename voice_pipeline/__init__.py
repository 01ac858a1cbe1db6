"""
Voice pipeline for vaani-server.

Stage collaborators used by a command session:
audio sink -> speech-to-text -> intent grammar -> calendar executor,
and speech synthesis for the answer.

The pipeline holds no per-connection state and knows nothing about the
transport; sessions in command_server drive it.
"""
