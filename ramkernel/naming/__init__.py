"""In-memory naming service: tmpfs, path lookup, open-object handles and its front end."""